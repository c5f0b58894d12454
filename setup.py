import os
import re
import setuptools


# for simplicity we actually store the version in the __version__ attribute in the source
here = os.path.realpath(os.path.dirname(__file__))
with open(os.path.join(here, 'torchhybrid', '__init__.py')) as f:
    meta_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", f.read(), re.M)
    if meta_match:
        version = meta_match.group(1)
    else:
        raise RuntimeError("Unable to find __version__ string.")


setuptools.setup(
    name="torchhybrid",
    version=version,
    description="Differentiable fixed grid ODE/SDE solvers with discrete events, for training neural "
                "networks inside hybrid differential equations in PyTorch.",
    packages=setuptools.find_packages(include=['torchhybrid', 'torchhybrid.*']),
    install_requires=['torch>=2.0.0', 'numpy'],
    extras_require={
        'test': ['pytest', 'scipy'],
    },
    python_requires='>=3.8',
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
    ],
)
