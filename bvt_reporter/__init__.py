"""BVT Reporter - Aggregates Cucumber message streams, delivers reports and drives recovery"""
__version__ = "1.0.0"
