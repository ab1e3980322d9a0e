"""Hot-Reload Server (HRS).

Runnable, single-process demo web server that demonstrates:
 - reading PORT / NODE_ENV / DATABASE_URL from a dotenv file
 - watching that file and reloading settings at runtime
 - reconnecting the database pool when DATABASE_URL changes
 - restarting the HTTP listener when PORT or NODE_ENV changes
 - degrading to mock data while no database is reachable
"""
