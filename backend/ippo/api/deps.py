from fastapi import Request

from ippo.engine.game import GameEngine


def get_engine(request: Request) -> GameEngine:
    """The app's game engine, advanced to now before the handler runs."""
    engine: GameEngine = request.app.state.engine
    engine.pump()
    return engine
