from setuptools import setup, find_packages

setup(
    name='helixctl',
    version='0.1.0',
    packages=find_packages(),
    include_package_data=True,
    package_data={
        'helixctl.services': ['templates/*.j2'],
    },
    install_requires=[
        'typer',
        'paramiko',
        'kubernetes',
        'jinja2',
        'cryptography>=42',
        'pydantic>=2',
        'pyyaml',
        'python-dotenv',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'helixctl=helixctl.cli:app'
        ]
    },
    description='Bootstrap highly-available Kubernetes control planes over SSH',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
