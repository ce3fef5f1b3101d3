"""
Módulo de Cuentas por Cobrar - documentos a cobrar de clientes, cobros con
desglose por forma de pago y crédito en el libro bancario.
"""
