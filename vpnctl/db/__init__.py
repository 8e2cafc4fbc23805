"""Peer store database configuration"""
