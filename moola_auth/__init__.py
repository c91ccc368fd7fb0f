"""
Moola Auth - Source Package

The on-device authentication core of the Moola personal-finance app:
a single local account unlocked with a PIN, with failed-attempt counting
and a time-boxed lockout.

DESIGN PRINCIPLES:
1. Check the lockout before doing any hashing work
2. Never store or log a plaintext PIN
3. Persistence is best effort; state is re-derived on load
4. Every authentication step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Moola Team"
