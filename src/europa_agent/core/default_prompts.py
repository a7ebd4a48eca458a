"""Built-in prompt sets, one per agent skill.

Templates are jinja2. ReAct templates receive ``content`` (the goal),
``tools``, ``tool_names`` and ``agent_scratchpad``; the plan template receives
``content`` and ``tool_definitions``.
"""
from europa_agent.schemas.agent import PromptSet, PromptTemplate

REACT_SYSTEM = """Answer the following questions as best you can. You have access to the following tools:

{{ tools }}

Use the following format:

Question: the input question you must answer
Thought: you should always think about what to do
Action: the action to take, should be one of [{{ tool_names }}]
Action Input: the input to the action
Observation: the result of the action
... (this Thought/Action/Action Input/Observation can repeat N times)
Thought: I now know the final answer
Final Answer: the final answer to the original input question"""

REACT_USER = """Begin!

Question: {{ content }}
Thought:{{ agent_scratchpad }}"""

FUNCTIONS_SYSTEM = """You are a helpful assistant. Use the provided functions when they help to answer the question.
When you know the answer, reply with "Final Answer: " followed by the answer."""

FUNCTIONS_USER = """Question: {{ content }}{{ agent_scratchpad }}"""

SIMPLE_SYSTEM = """You are a helpful assistant with access to these tools:

{{ tools }}

To use a tool, reply with:
Action: one of [{{ tool_names }}]
Action Input: the input to the tool

When you can answer directly, reply with:
Final Answer: your answer"""

PLAN_SYSTEM = """Let's first understand the problem and devise a plan to solve the problem. \
Please output the plan starting with the header "Plan:" followed by a numbered list of steps. \
Please make the plan the minimum number of steps required to accurately complete the task. \
If the task is a question, the final step should almost always be "Given the above steps taken, \
please respond to the user's original question". At the end of your plan, say "<END_OF_PLAN>".

You can use these tools:

{{ tool_definitions }}"""

PLAN_USER = """{{ content }}"""


DEFAULT_PROMPT_SETS: list[PromptSet] = [
    PromptSet(
        id="default-react-plan",
        name="ReAct",
        skill="react_plan",
        prompts=[PromptTemplate(prompt=REACT_SYSTEM), PromptTemplate(prompt=REACT_USER)],
    ),
    PromptSet(
        id="default-react-plan-functions",
        name="ReAct with functions",
        skill="react_plan_1",
        prompts=[PromptTemplate(prompt=FUNCTIONS_SYSTEM), PromptTemplate(prompt=FUNCTIONS_USER)],
    ),
    PromptSet(
        id="default-simple-agent",
        name="Simple agent",
        skill="simple_agent",
        prompts=[PromptTemplate(prompt=SIMPLE_SYSTEM), PromptTemplate(prompt=REACT_USER)],
    ),
    PromptSet(
        id="default-plan",
        name="Plan and execute",
        skill="plan",
        prompts=[PromptTemplate(prompt=PLAN_SYSTEM), PromptTemplate(prompt=PLAN_USER)],
    ),
]
