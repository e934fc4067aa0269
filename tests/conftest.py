import os

# settings reads its config at import time; point it at the shipped example.
os.environ.setdefault(
    "STOREWATCH_CONFIG",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config.example.json"),
)
