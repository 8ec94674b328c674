"""
Compliance Domain Module

Typed boundary models for the external authority and the abstract
interfaces the facades consume.
"""
