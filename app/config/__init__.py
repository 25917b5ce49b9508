# =============================================================================
# Django Project Configuration Package
# =============================================================================
# This package contains the Django configuration: settings, URLs and the
# WSGI application used to serve the admin.
# =============================================================================
