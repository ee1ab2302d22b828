from setuptools import setup, find_namespace_packages

name = "picont"
version = "1.0"
author = "picont developers"
author_email = ""
url = ""
description = "Predictor-corrector continuation of implicitly defined curves with local parameterization, target points and limit points"
long_description = ""
license = "LICENSE"

setup(
    name=name,
    version=version,
    author=author,
    author_email=author_email,
    description=description,
    long_description=long_description,
    install_requires=["numpy>=1.26.4", "scipy>=1.13.0", "matplotlib >=3.10.1", "typing_extensions>=4.4.0"],
    extras_require={"test": ["pytest>=8.0"]},
    packages=find_namespace_packages(include=["picont", "picont.*"]),
    python_requires=">=3.11",
)
