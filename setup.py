from setuptools import setup, find_packages

setup(
    name="presolvekit",
    version="0.1",
    url="https://github.com/klamt-lab/presolvekit.git",
    description="Presolve reductions with transaction log and postsolve for linear and mixed-integer problems",
    long_description=("Presolve reductions with transaction log and postsolve for linear and mixed-integer problems. "
                      "Reductions are grouped into atomically applied transactions and recorded in a compact postsolve "
                      "storage that recovers primal and dual solutions of the original problem."),
    long_description_content_type="text/plain",
    author="Philipp Schneider",
    author_email="zgddtgt@gmail.com",
    license="Apache License 2.0",
    python_requires=">=3.8",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=["numpy", "scipy"],
    extras_require={"test": ["pytest", "pytest-timeout"]},
    classifiers=[
        "Intended Audience :: Science/Research", "Development Status :: 3 - Alpha", "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10", "Programming Language :: Python :: 3.11", "Programming Language :: Python :: 3.12",
        "Natural Language :: English", "Operating System :: OS Independent", "Topic :: Scientific/Engineering :: Mathematics"
    ],
    keywords=["presolve", "postsolve", "linear programming", "mixed-integer"],
    zip_safe=False,
)
