from setuptools import setup, find_packages

setup(
    name="plan-inspector",
    version="0.1.0",
    description="Inspect migration controller logs and Plan YAML resources",
    author="Your Name",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"plan_inspector": ["config/*.yaml"]},
    install_requires=[
        "click>=8.1.0",
        "pyyaml>=6.0",
        "pandas>=2.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "plan-inspector=plan_inspector.cli.main:main",
        ],
    },
    python_requires=">=3.8",
)
