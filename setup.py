# setup.py
from setuptools import setup, find_packages

setup(
    name="unveil_seo",
    version="0.1.0",
    description="Unveil SEO: поиск якорей и подбор страниц для внутренней перелинковки",
    packages=find_packages(exclude=["tests", "tests.*"]),  # найдёт папку unveil_seo
    package_data={
        "unveil_seo": [
            "linking/wordlists/*.txt",
            "filters/rules/*.txt",
            "report/templates/*",
        ],
    },
    install_requires=[
        "aiohttp>=3.9",
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "click>=8.0",
        "beautifulsoup4>=4.12",
        "Jinja2>=3.1",
        "openai>=1.0",
        "numpy>=1.24",
        "pandas>=2.0",
        "openpyxl>=3.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "unveil-seo=unveil_seo.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
