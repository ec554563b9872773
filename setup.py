from setuptools import find_packages, setup


extras_require = {}

extras_require["test"] = [
    'pytest'
]


setup(
    name='embedoc',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    license='MIT',
    description='Dataclass entities with embedded values and references, mapped to MongoDB',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    install_requires=[
        'PyMongo>=4.6.3,<5.0',
        'python-dotenv>=1.0.0,<2.0',
        'python-dateutil>=2.8'
    ],
    extras_require=extras_require,
    python_requires=">=3.10"
)
