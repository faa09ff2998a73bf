"""Mutombo package"""
