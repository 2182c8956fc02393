"""Setup configuration for azdo_mcp"""

from setuptools import setup, find_namespace_packages

setup(
    name="azdo-mcp-server",
    version="0.1.0",
    description=(
        "Model Context Protocol server for Azure DevOps: repositories, pull "
        "requests, work items, pipelines and wikis."
    ),
    author="Azure DevOps MCP Server Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["azdo_mcp*"]),
    install_requires=[
        "requests>=2.28.0",
        "mcp>=1.20.0,<2",
        "jsonschema>=4.18",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "azdo-mcp-server=azdo_mcp.main:main",
        ],
    },
)
