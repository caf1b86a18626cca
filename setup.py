"""Setup script for codesign-keychain."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="codesign-keychain",
    version="0.1.0",
    description="Ephemeral keychain provisioning for macOS code signing in CI",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["codesign_keychain", "codesign_keychain.*"]),
    python_requires=">=3.8",
    install_requires=[
        "cryptography>=41.0.0",
        "PyYAML>=6.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-mock>=3.10",
        ],
    },
    entry_points={
        "console_scripts": [
            "codesign-keychain=codesign_keychain.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
