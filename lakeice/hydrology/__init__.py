"""Physical processes of snow and ice on lakes."""
