from setuptools import find_packages, setup

setup(
    name="mxops",
    version="0.1.0",
    description="Durable orchestrator for Mendix cloud environment actions",
    python_requires=">=3.9",
    install_requires=[
        "click>=8.1",
        "Jinja2>=3.1",
        "pydantic-settings>=2.0",
        "python-dotenv>=1.0",
        "requests>=2.31",
        "SQLAlchemy>=2.0",
        "tabulate>=0.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    packages=find_packages(include=["mxops", "mxops.*"]),
    entry_points={
        "console_scripts": [
            "mxops=mxops.cli.__main__:cli",
        ],
    },
    package_data={},
)
