"""Domains consumed as predicates."""

from jetpy.topology.domains import Ball, Box, Domain, FiniteSet, Inserted, Intersection, Universe
