from setuptools import setup, find_packages

with open('README.md', 'r', encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='pycarshape',
    version='0.1.0',
    author='SperidLabs',
    author_email='contact@speridlabs.com',
    description='Loader for deformable car shape and pose adjustment problem files',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.20.0',  # numpy.typing
    ],
    extras_require={
        'dev': [
            'pytest>=6.0',
        ]
    },
)
