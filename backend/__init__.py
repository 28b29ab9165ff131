"""
Módulo Backend - API REST de Bruce App.

Este paquete contiene el servidor FastAPI que expone el núcleo `bruce/`
(modelos, multi-tenancy, suscripciones) como endpoints HTTP REST.

Componentes:
    - app.py: Aplicación FastAPI, middlewares y handlers de error
    - auth.py: Dependencias de autenticación (Bearer o cookie auth-token)
    - auth_service.py: Hashing bcrypt, JWT y alta de usuarios
    - routers/: Endpoints por recurso

Arquitectura:
    Frontend (Next.js) → Backend (FastAPI) → Core (bruce/) → MongoDB

Ejecución:
    uvicorn backend.app:app --reload --port 8000
"""
