"""
Módulo de Numeración - asigna números secuenciales por tenant, tipo de
documento y sucursal usando una fila contador con incremento atómico.
"""
