"""Wallet system for the signing broker.

Provides the encrypted keystore, per-family key handling for EVM and SVM
networks, funds checks, the in-memory active wallet registry, and the
resolution engine that decides where a signing key comes from.
"""
