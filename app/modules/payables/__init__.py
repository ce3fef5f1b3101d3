"""
Módulo de Cuentas por Pagar - obligaciones con proveedores, pagos con
débito en el libro bancario y proyección de flujo de caja.
"""
