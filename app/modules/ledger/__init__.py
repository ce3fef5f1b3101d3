"""
Módulo Ledger - motor de liquidación compartido por cuentas por cobrar y
cuentas por pagar.

Un documento (LedgerDocument) tiene monto total y saldo; cada abono
(Posting) reduce el saldo. El motor es el único que escribe saldo y estado.
"""
