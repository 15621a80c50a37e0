from langgraph.graph import StateGraph, START, END

from .state import PipelineState
from .nodes import (
    enrich_node,
    finalize_node,
    format_node,
    generate_node,
    route_after_format,
    route_after_generate,
)


def build_pipeline_graph():
    workflow = StateGraph(PipelineState)

    workflow.add_node("Generate", generate_node)
    workflow.add_node("Format", format_node)
    workflow.add_node("Enrich", enrich_node)
    workflow.add_node("Finalize", finalize_node)

    workflow.add_edge(START, "Generate")

    # A failed generation skips straight to Finalize so failure events are still emitted.
    workflow.add_conditional_edges(
        "Generate",
        route_after_generate,
        {
            "Format": "Format",
            "Finalize": "Finalize",
        },
    )
    workflow.add_conditional_edges(
        "Format",
        route_after_format,
        {
            "Enrich": "Enrich",
            "Finalize": "Finalize",
        },
    )
    workflow.add_edge("Enrich", "Finalize")
    workflow.add_edge("Finalize", END)

    # Runs are one-shot and carry live clients in their config, so no checkpointer.
    return workflow.compile()


pipeline_graph = build_pipeline_graph()
