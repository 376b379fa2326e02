"""Convivencia Escolar - Case engine services"""
