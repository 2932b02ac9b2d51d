from setuptools import setup, find_packages

setup(
    name="pybarrier",
    version="0.1.0",
    packages=find_packages(exclude=["test", "test.*"]),
    install_requires=["numpy", "scipy", "matplotlib"],
    extras_require={"test": ["pytest"]},
    author="Your Name",
    description="Barrier quasi-Newton method for bound-constrained nonlinear minimization",
    license="MIT",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License"
    ]
)
