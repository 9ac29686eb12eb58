import setuptools

setuptools.setup(
    name="mpcfill_order_importer",
    version="0.2",
    author="yochi",
    author_email="pedrogush@gmail.com",
    description="Import MPC Fill orders and download their card images",
    packages=["utils", "services", "repositories"],
    py_modules=["main"],
    classifiers=["Programming Language :: Python :: 3", "Operating System :: OS Independent"],
    python_requires=">=3.11",
    install_requires=[
        "loguru",
        "pillow",
        "requests",  # MPC Fill image endpoint
    ],
    extras_require={
        "test": ["pytest"],
    },
)
