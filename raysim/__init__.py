"""
raysim

Monte Carlo simulation over probability graphs: build a graph from editor
state, trace random rays through it in a worker process, and compare the
observed hit ratios with the configured branch probabilities.
"""

__version__ = "0.1.0"
