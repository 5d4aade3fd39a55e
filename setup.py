# -*- coding: utf-8 -*-
"""gcp-secretmanager-bootstrap a module for bootstrapping deployment secrets.

This module creates the secrets a deployment needs in google cloud secret manager
without ever overwriting one that exists, and lets a workload resolve them through a
read only identity separate from the identity that wrote them.

"""

import setuptools
import re
from io import open

VERSIONFILE="gcp_secretmanager_bootstrap/_version.py"
verstrline = open(VERSIONFILE, "rt").read()
VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    verstr = mo.group(1)
else:
    raise RuntimeError("Unable to find version string in %s." % (VERSIONFILE,))

with open("README.md", "r", encoding='utf-8') as fh:
    long_description = fh.read()

setuptools.setup(
    name='gcp_secretmanager_bootstrap',
    version=verstr,
    author="Mike Moore",
    author_email="z_z_zebra@yahoo.com",
    description="Idempotent bootstrap of google cloud platform secrets with separate writer and reader identities",
    long_description_content_type="text/markdown",
    long_description=long_description,
    url="https://github.com/Mikemoore63/gcp-secretmanager-bootstrap",
    packages=setuptools.find_packages(),
    include_package_data=True,
    license="MIT",
    python_requires=">=3.8",
    install_requires=[
        "google-cloud-secret-manager~=2.0",
        "google-api-python-client>1.0,<3.0",
        "google-cloud-storage>1.0,<4.0",
        "google-api-core>=2.15,<3.0",
        "google-auth>=2.0,<3.0",
        "google-crc32c~=1.0",
        "grpcio~=1.0"
    ],
    extras_require={
        "test": ["pytest", "grpc-google-iam-v1"]
    },
    entry_points={
        "console_scripts": [
            "gcp-secret-bootstrap=gcp_secretmanager_bootstrap.cli:main"
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],

)
