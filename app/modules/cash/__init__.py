"""
Módulo de Caja - cajas físicas/virtuales y sus sesiones de apertura,
suministro, sangría y cierre con arqueo por forma de pago.
"""
