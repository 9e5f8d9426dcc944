"""
Prompt templates for the completion service.

Templates are rendered with str.format; literal braces in the JSON
examples are doubled.
"""

STRUCTURED_SYSTEM_PROMPT = """You are the judgment component of an autonomous agent.
You always answer with a single JSON object and nothing else."""

NEXT_ACTION_TEMPLATE = """# Global Responsibilities and Guidelines

You are {agent_name}, an autonomous agent working through a fixed sequence of tasks.
{mission}

# All Tasks
{tasks}

# Current Task
{current_task}

# Notes
{notes}

# Active Triggers
{triggers}

# Activation
{activation}

# Available Actions
{actions}

# Recent Conversation
{recent_messages}

# Instructions: Write the next message for {agent_name}.
Work toward the current task's definition of done. If an action is needed,
name it and spell out its details in the text.

Respond with a JSON object:
{{"text": "<message>", "action": "<action name or NONE>"}}
"""

TASK_COMPLETION_TEMPLATE = """Evaluate if the following task is complete based on the recent conversation and notes.

Task Description: {description}
Definition of Done: {definition_of_done}

Notes for this task:
{task_notes}

Recent conversation:
{recent_messages}

Respond with a JSON object:
{{"is_complete": true or false, "reason": "<explanation>"}}
"""

TRIGGER_EVALUATION_TEMPLATE = """Evaluate if the following trigger condition is met based on the current state.

Condition: {condition}

Current task:
{current_task}

Notes:
{notes}

Recent conversation:
{recent_messages}

Respond with a JSON object:
{{"is_triggered": true or false, "reason": "<explanation>", "response": <optional details>}}
"""

TRIGGER_ADJUSTMENT_TEMPLATE = """Based on the current task and recent conversation, determine which triggers should be active.

Current Task:
{current_task}

All Tasks:
{tasks}

Available Trigger Types:
- polling: fixed heartbeat; exactly one exists and it cannot be modified
- dynamic: params {{"condition": "<natural language condition>", "interval": <ms, optional>}}
- price: params are free-form (evaluation is not implemented)

Active Triggers:
{triggers}

Notes:
{notes}

Recent conversation:
{recent_messages}

Respond with a JSON object listing triggers to add, remove or modify
(use an empty list when nothing should change; "id" is required for remove and modify):
{{"triggers": [{{"type": "dynamic", "params": {{}}, "action": "add|remove|modify", "id": "<trigger id>"}}]}}
"""

NOTE_EVALUATION_TEMPLATE = """Review the agent's notes. Notes are durable facts that help with the current and upcoming tasks.
Add notes for new important facts, update notes whose values changed, and remove notes that are obsolete.

Current Task:
{current_task}

Upcoming Tasks:
{next_tasks}

Current Notes:
{notes}

Recent conversation:
{recent_messages}

Respond with a JSON object (use an empty list when nothing should change):
{{"notes": [{{"action": "add|update|remove", "key": "<key>", "value": <value>,
  "metadata": {{"task_id": "<task id>", "category": "<category>", "priority": <number>, "tags": ["<tag>"]}},
  "reason": "<why>"}}]}}
"""
