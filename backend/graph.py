"""
LangGraph state machine — one run per uploaded document.

Graph topology:
  START → extractor → calculator → END

Documents are fanned out by main.py (one graph run per document, run
concurrently); the two-document comparison is applied only after every run
has returned.
"""

from langgraph.graph import END, StateGraph

from agents.calculator import calculator_node
from agents.extractor import extractor_node
from state import AnalysisState

PIPELINE_NODES = ("extractor", "calculator")

workflow = StateGraph(AnalysisState)

workflow.add_node("extractor", extractor_node)
workflow.add_node("calculator", calculator_node)

workflow.set_entry_point("extractor")

workflow.add_edge("extractor", "calculator")
workflow.add_edge("calculator", END)

graph = workflow.compile()
