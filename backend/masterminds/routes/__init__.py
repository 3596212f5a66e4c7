"""
MasterMinds Backend — API Routes Package
=========================================

What:  HTTP route handlers that accept requests and return responses.
How:   One module per resource; each exposes an APIRouter that main.py mounts
       under /api and /api/v1.

Route Inventory:
    - auth.py:          /auth/register, /auth/login, /auth/me,
                        /auth/logout, /auth/refresh
    - applications.py:  /applications and /applications/{id}
    - health.py:        /health (also mounted at the root)

Routes stay thin: extract the request data, call the service, wrap the
result in the success envelope. Business rules live in services/.
"""
