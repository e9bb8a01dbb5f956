from setuptools import setup, find_packages

setup(
    name='librarian',
    version='0.1.0',
    packages=find_packages(),
    entry_points={
        'console_scripts': [
            'librarian=librarian.cli:main',
        ],
    },
    install_requires=[
        'python-dotenv',
        'click',
        'aiohttp',
        'pydantic>=2',
        'fastapi',
        'uvicorn',
        'python-multipart',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    author='While True Industries',
    author_email='adam@whiletrue.industries',
    description='Content library mirror and publisher for a GitHub-hosted repository',
    python_requires='>=3.10',
)
