"""
Domain Sync Setup
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="domain-sync",
    version="1.0.0",
    author="Domain Operations",
    description="Domain portfolio reconciliation against registrar, DNS and content filter",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: Name Service (DNS)",
        "Topic :: System :: Systems Administration",
    ],
    python_requires=">=3.10",
    install_requires=[
        "httpx>=0.25.0",
        "dnspython>=2.4.0",
        "lxml>=4.9.0",
        "pyyaml>=6.0",
        "click>=8.0.0",
        "python-dateutil>=2.8.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "types-PyYAML",
            "types-python-dateutil",
        ],
    },
    entry_points={
        "console_scripts": [
            "domain-sync=domain_sync_cli.main:main",
            "domain-sync-filter=domain_sync_cli.filter_cron:main",
        ],
    },
)
