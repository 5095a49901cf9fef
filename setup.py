from setuptools import setup, find_packages

setup(
    name="wallet-balancer",
    version="1.0.0",
    author="Wallet Balancer Team",
    description="Lot-aware portfolio rebalancing engine with margin policy and async account runner",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={
        "portfolio_base": ["py.typed"],
        "balancer_config": ["py.typed"],
        "wallet_balancer": ["py.typed"],
        "balance_runner": ["py.typed"],
    },
    install_requires=[
        "pydantic==2.11.7",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
        ],
    },
    python_requires=">=3.11",
)
