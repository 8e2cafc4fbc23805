"""Pydantic schemas for the REST API"""
