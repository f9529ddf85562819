# Routes package init
"""
PlaceShare Backend: API Routes Package
=======================================

Route Inventory:
    - places.py:  GET    /api/places/{id}
                  GET    /api/places/user/{user_id}
                  POST   /api/places                (multipart, bearer)
                  PATCH  /api/places/{id}           (bearer)
                  DELETE /api/places/{id}           (bearer)
    - users.py:   GET    /api/users
                  POST   /api/users/signup
                  POST   /api/users/login
                  PATCH  /api/users/{id}/profileUpdate       (multipart, bearer)
                  PATCH  /api/users/{id}/profileImageDelete  (bearer)
                  DELETE /api/users/{id}/deleteAccount       (bearer)
                  POST   /api/users/{id}/savePlace           (bearer)
                  POST   /api/users/{id}/unsavePlace         (bearer)
    - files.py:   GET    /uploads/images/{name}
    - health.py:  GET    /health

Routes stay thin: parse the request, call a service, shape the response.
"""
