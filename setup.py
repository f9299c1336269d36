from setuptools import setup, find_packages


setup(
    name='torch_krylov',
    version='0.1.0',
    packages=find_packages(include=['torch_krylov', 'torch_krylov.*']),
    install_requires=[
        'torch>=1.13.0',
        'numpy'
    ],
    extras_require={
        'scipy':['scipy'],
        'test':['pytest','numpy','scipy'],
    }
)
