"""
EVT Risk Engine -- Package Setup

Theoretical foundations:
  Embrechts, P., Klueppelberg, C. & Mikosch, T. (1997). Modelling Extremal
      Events for Insurance and Finance. Springer.
  McNeil, A.J., Frey, R. & Embrechts, P. (2015). Quantitative Risk
      Management, revised edition. Princeton University Press.
  Smith, R.L. (1987). Estimating Tails of Probability Distributions.
      Annals of Statistics, 15(3), 1174-1207.
"""
from setuptools import setup, find_packages

setup(
    name="evt-risk-engine",
    version="1.0.0",
    author="Jose Orlando Bobadilla Fuentes",
    description="Peaks-over-threshold GPD tail risk (VaR/ES) and Gumbel "
                "MDA speed-of-convergence analysis.",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24.0",
        "scipy>=1.10.0",
        "pandas>=2.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
)
