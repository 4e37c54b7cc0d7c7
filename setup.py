import os
from setuptools import setup, find_packages

# Read the contents of README.md for the long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Define the requirements, excluding any commented-out lines
requirements = [
    "aiofiles>=23.2.1",
    "click>=8.1.7",
    "fuzzywuzzy>=0.18.0",
    "langchain_core>=0.3.5",
    "litellm>=1.40.0",
    "openai>=1.30.0",
    "pydantic>=2.7.0",
    "python-dotenv>=1.0.1",
    "python-Levenshtein>=0.25.0",
    "rich>=13.8.1",
    "watchdog>=4.0.0",
]

test_requirements = [
    "httpx>=0.27.0",
    "pytest>=8.3.2",
    "pytest-asyncio>=0.23.0",
    "pytest-mock>=3.14.0",
]

setup(
    name="oi-cli",
    version="0.3.0",
    description="oi: answer inline //> prompts <// in source files with an LLM",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"oi": ["prompts/*.prompt"]},
    install_requires=requirements,
    extras_require={"test": test_requirements},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Environment :: Console",
        "Topic :: Software Development :: Code Generators",
    ],
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "oi=oi.cli:cli",
        ],
    },
    include_package_data=True,
    keywords=[
        "code generation",
        "CLI",
        "AI-assisted development",
        "inline prompts",
    ],
    license="MIT",
)
