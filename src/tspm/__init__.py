"""
TSPM - Transit Signal Priority Measures

A Python package that reconstructs priority request cycles from
controller event logs and derives timing metrics, descriptive statistics
and time-bucket aggregations, using the Functional Core, Imperative Shell
architecture.

Structure:
- analysis/ : Functional Core (pure transformations)
- data/     : Imperative Shell (SQLite I/O, engine orchestration)
- utils/    : logging and timezone helpers
"""

__version__ = "0.1.0"
