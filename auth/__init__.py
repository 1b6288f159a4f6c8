"""auth/ -- Accounts, credentials, sessions and the request gate for Beer Diary.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, web/, or diary/.
api/ and web/ import from auth/, not the other way around.
"""
