from fastapi import FastAPI

from execution_pipeline.pipeline import ExecutionPipeline
from proposal_pipeline.pipeline import build_default_pipelines

from .api import execution_router, install_error_handlers, proposal_router
from .config import get_settings


def create_app(pipeline=None, proposal_pipelines=None, settings=None):
    settings = settings or get_settings()
    if pipeline is None:
        pipeline = ExecutionPipeline.from_settings(settings)
    if proposal_pipelines is None:
        proposal_pipelines = build_default_pipelines(pipeline.log)

    app = FastAPI(title="Cultivation Execution Service")
    app.state.settings = settings
    app.state.pipeline = pipeline
    app.state.proposal_pipelines = proposal_pipelines
    app.include_router(execution_router, prefix="/execution")
    app.include_router(proposal_router, prefix="/proposals")
    install_error_handlers(app)
    return app


# convenience for running locally
if __name__ == '__main__':
    import uvicorn
    from .logging_setup import setup_logging

    cfg = get_settings()
    setup_logging(cfg.LOG_DIR, cfg.LOG_LEVEL)
    app = create_app(settings=cfg)
    uvicorn.run(app, host='0.0.0.0', port=cfg.PORT)
