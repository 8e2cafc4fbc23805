"""Peer registry, address allocation and tunnel tooling services"""
