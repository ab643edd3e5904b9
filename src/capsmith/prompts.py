"""Prompt templates sent to the generator."""

from __future__ import annotations

import json

SAMPLE_FUNCTION_SPEC = {
    "name": "get_weather",
    "description": "Get the current weather for a city",
    "parameters": {
        "type": "object",
        "properties": {
            "city": {
                "type": "string",
                "description": "The city",
            },
        },
        "required": ["city"],
    },
}

REQUEST_FUNCTION_NAME = "requestFunction"

REQUEST_FUNCTION_SPEC = {
    "name": REQUEST_FUNCTION_NAME,
    "description": "Requests a new function with given name and description",
    "parameters": {
        "type": "object",
        "properties": {
            "name": {
                "type": "string",
                "description": (
                    "The name of the function, a Python identifier that does not end in a digit. "
                    "For example send_email."
                ),
            },
            "description": {
                "type": "string",
                "description": (
                    "A detailed description of what the function does, including input params "
                    "and return value. For example: 'Sends an email to the given email address "
                    "with the given subject and body'. Also include an example of the input you "
                    "plan to send to this function."
                ),
            },
        },
        "required": ["name", "description"],
    },
}

MAIN_SYSTEM_MESSAGE = """You are an assistant with the ability to dynamically request new functions.

Before responding to a new prompt, figure out if you need any functions to complete the task.
Use the requestFunction function to describe what you need, and it will be available to you
in the next message.

Don't request a new function if that function already exists.
Don't request a new function for things you can do yourself.

Example 1: If I ask you to summarize a web page, don't ask for a function to summarize a web page.
Instead, ask for a function to fetch a web page (since you can't do that yourself), and then do
the summarizing yourself. That keeps the functions small and simple.

Example 2: If I ask about events after your training cutoff, you can request a function to search
the web, and then summarize and interpret the results yourself.

If you need information from the user, for example an API key for a third-party service, ask the
user for it and then pass it to the function. Don't rely on environment variables or config files.

After you have all the functions and information you need, respond to the original prompt.
"""

CODE_STYLE = """
- Write a single Python 3 module. Import third-party packages at the top of the module.
- {function_name} must accept exactly one positional argument: a dict of named parameters.
- The function should raise an exception if it can't complete successfully.
- It may be a plain function or an async function.
- Treat file paths as relative to the current working directory, not to the module. Don't use __file__.
- Use well-known packages from PyPI whenever possible instead of writing your own code for common tasks.
- Use print() or the logging module to report progress.
- Don't include dummy or placeholder code. The function should be complete and ready for production use.
- If the function needs user-specific or environment-specific information, for example a password or
  an API key, take it as a parameter. Don't prompt the user from inside the function, and don't rely
  on hardcoded values, config files, or environment variables.
"""

IMPLEMENTATION_SYSTEM_MESSAGE = "You are an expert Python programmer."

CREATE_IMPLEMENTATION_PROMPT = '''Write a Python function named {function_name}
based on the following description within triple quotes:
"""
{function_description}
"""

Provide a complete Python module that defines {function_name}, obeying the following code rules:
{code_style}

Use --- as a delimiter on its own line at both the beginning and end of the module.
'''

CREATE_SPEC_PROMPT = """Create a function spec for the code above.
It should be formatted as a JSON Schema object. Here is an example:
{sample_spec}

Use --- as a delimiter on its own line at both the beginning and end of the function spec.
"""

DEBUG_SYSTEM_MESSAGE = """You are a master debugger. When you are asked to fix a function you either
return a complete new module with the fixed function code, or, if the module is correct and the input
was wrong, a JSON object with corrected input arguments.
Use --- as a delimiter on its own line at both the beginning and end of whichever you return.
"""

DEBUG_PROMPT = """Debug the {function_name} function.

Here is the function spec:
{function_spec}

Here is the complete module:
---
{module_code}
---

I sent the following input:
---
{function_input}
---

Here is the console output:
---
{console_output}
---

I got the following error:
---
{function_error}
---

If the bug is in the module, provide a complete new version of this module where the bug is fixed.
Make sure the implementation obeys the function spec, and follow these code rules:
{code_style}

If the module is fine and the input was wrong, instead return only a JSON object with the corrected
input arguments.

If you are unable to determine the cause of the bug, return the same module with more logging to
help debug it later.

Use --- as a delimiter on its own line at both the beginning and end of what you return.
"""


def code_style(function_name: str) -> str:
    return CODE_STYLE.format(function_name=function_name)


def implementation_prompt(function_name: str, function_description: str) -> str:
    return CREATE_IMPLEMENTATION_PROMPT.format(
        function_name=function_name,
        function_description=function_description,
        code_style=code_style(function_name),
    )


def spec_prompt() -> str:
    return CREATE_SPEC_PROMPT.format(sample_spec=json.dumps(SAMPLE_FUNCTION_SPEC, indent=2))


def debug_prompt(
    function_name: str,
    function_spec: str,
    module_code: str,
    function_input: str,
    console_output: str,
    function_error: str,
) -> str:
    return DEBUG_PROMPT.format(
        function_name=function_name,
        function_spec=function_spec,
        module_code=module_code,
        function_input=function_input,
        console_output=console_output or "(no output)",
        function_error=function_error,
        code_style=code_style(function_name),
    )
