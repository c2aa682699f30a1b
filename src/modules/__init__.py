"""
Domain modules for Arena.

- shared: base service/repository, exceptions, pagination, localization
- season: season registry, history, rewards, rotation
- match: match lifecycle and matchmaking
- ranking: ELO/rank formulas and statistics
"""
