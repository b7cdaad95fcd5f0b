"""
AfterLife — Dead-Man's-Switch Inheritance Protocol
====================================================
Owner proves life periodically; once silent past the inactivity threshold a
guardian confirms it and the vault vests out to the registered beneficiaries.
"""

__version__ = "0.1.0"
