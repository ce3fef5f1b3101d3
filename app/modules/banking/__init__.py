"""
Módulo Bancario - cuentas bancarias y su libro de movimientos append-only.
"""
