"""auth/ -- Identity, credentials, and account lifecycle for UpTrack.

Layer rule: auth/ imports stdlib, third-party libraries, core/ (config), and
notify/ (only the dispatcher it is handed). It does NOT import from api/ or
projects/. api/ imports from auth/, not the other way around.
"""
