"""geoattend package.

Session lifecycle and check-in verification engine, organized by feature
modules (sessions, attendance, scheduler, ...) with a thin Flask controller
layer over service/repository layers.
"""
