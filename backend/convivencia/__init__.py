"""
Convivencia Escolar - Case Engine Backend

Disciplinary case files for schools: lifecycle, legal deadlines and
compliance audit (Circulars 781 and 782).
"""

__version__ = "1.0.0"
