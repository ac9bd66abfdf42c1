"""
Utilidades compartidas del motor de stock y ganancias.

Contenido:
    - excepciones: jerarquía de errores de negocio (todas son ValidationError).
    - contexto:    contexto explícito de quien invoca (usuario + rol).
    - transacciones: reintento de operaciones ante conflictos de bloqueo.
    - dinero:      redondeo monetario único para toda la app.
    - cuentas:     resolución de la cuenta admin y validación de usuarios.
"""
