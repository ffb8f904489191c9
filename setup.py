"""Setup script for declmcp."""

from setuptools import find_packages, setup

setup(
    name="declmcp",
    version="0.1.0",
    description="Compile typed interface declarations into validated MCP tool, prompt and resource registrations",
    author="declmcp contributors",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "pydantic>=2.6.0",
        "email-validator>=2.0.0",
        "typing_extensions>=4.8.0",
        "rich>=13.0.0",
        "python-dotenv>=1.0.0",
        "opentelemetry-api>=1.20.0",
        "opentelemetry-sdk>=1.20.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
