#Marks backend as a package.
#Django project (dispatch_backend), HTTP API (api) and WebSocket push (realtime).

__version__ = "0.1.0"
