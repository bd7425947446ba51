# Gun Law Justifiable Homicide Analysis - Main Package
"""
Stand-Your-Ground and Right-to-Carry Laws and Justifiable Homicides

Fixed-effects negative binomial panel models, event-study windows and
placebo permutation inference on state- and city-level panels.
"""

__version__ = "0.1.0"
