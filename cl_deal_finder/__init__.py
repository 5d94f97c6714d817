"""
Craigslist Deal Finder

Watches Craigslist for listings that match saved searches, scores each
new listing with a web-grounded Gemini evaluation, and emails a digest
of the good deals found in every scan.
"""

__version__ = "0.1.0"
__author__ = "Craigslist Deal Finder Team"
