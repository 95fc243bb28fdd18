from setuptools import find_packages, setup

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='abi-reconstructor',
    packages=find_packages(include=['abi_reconstructor']),
    version='0.1.0',
    description='Reconstruct EVM contract ABIs from verified sources or runtime bytecode',
    long_description=long_description,
    long_description_content_type="text/markdown",
    author='SBIP',
    license='MIT',
    python_requires='>=3.8',
    install_requires=['addict>=2.4.0',
                      'pycryptodome>=3.16.0',
                      'httpx>=0.24.0',
                      'web3>=6.0.0',
                      'eth-utils>=2.0.0',
                      'eth-abi>=4.0.0'],
    extras_require={'test': ['pytest>=7.0.0']},
    entry_points={
        'console_scripts': ['abi-reconstructor=abi_reconstructor.cli:main'],
    },
    setup_requires=['pytest-runner'],
    tests_require=['pytest>=7.0.0'],
    test_suite='tests',
)
