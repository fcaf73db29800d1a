"""
Request controllers for the site service.

Controllers are framework-agnostic: each takes request data and returns
``(data, status code, headers)``. Routes are responsible for rendering the
data and for setting cookies on the response.
"""
