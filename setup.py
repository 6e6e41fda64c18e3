# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="lp_locker",
    version="0.1.0",
    packages=find_namespace_packages(include=["lp_locker", "lp_locker.*"]),
    install_requires=[
        "msgpack",            # state records
        "plyvel",             # LevelDB backing store
        "pycryptodome",       # keccak-256
        "cryptography",       # ECDSA call signatures
        "prometheus_client",  # metrics
        "psutil",             # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "lp-locker-genesis=lp_locker.genesis_tool:main",
        ],
    },
)
