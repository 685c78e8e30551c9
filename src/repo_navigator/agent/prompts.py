"""Prompt templates for routing, answering, artifacts and code insights."""

from __future__ import annotations

from langchain_core.prompts import PromptTemplate

from repo_navigator.types import Domain

ROUTER_PROMPT = PromptTemplate.from_template(
    """
You are a router for questions about a source-code repository. Decide which data
domain the question targets.

User Question: {question}

Choose exactly one domain:
1. code - the codebase, code structure, how features are implemented, anything that needs the source
2. commits - commit history, specific commits, authors of changes
3. pulls - pull requests, reviews, merge status
4. issues - issues, bug reports, feature requests
5. releases - releases, versions, release notes
6. stats - repository statistics, contributor activity, code frequency
7. users - contributors, their contributions or profiles
8. repo_meta - repository metadata, settings, languages, topics, general information

Extract 2-5 keywords useful for searching or filtering within the chosen domain
(technical terms, function names, version numbers, labels, usernames).

Return only a JSON object with these fields:
{{"domain": "ONE_OF_THE_DOMAINS", "explanation": "why this domain fits", "keywords": ["keyword1", "keyword2"]}}
""".strip()
)

ANSWER_PROMPT = PromptTemplate.from_template(
    """
You are an expert repository analyst answering questions about {repository}.

User Question: {question}

{instructions}

{context_note}

Context ({domain}):
{context}

Format your response in markdown. End with a section titled "Follow-up Questions"
containing 2-3 bulleted questions the user could ask next.
""".strip()
)

DOMAIN_INSTRUCTIONS: dict[Domain, str] = {
    Domain.CODE: (
        "Please provide:\n"
        "1. A clear and comprehensive answer to the question\n"
        "2. References to specific files and line numbers from the provided code\n"
        "3. Explanations of how the relevant code works\n"
        "4. Context about how this fits into the broader codebase if applicable"
    ),
    Domain.COMMITS: (
        "Answer using the commits below. Reference specific commits by short SHA "
        "and mention authors and changed files when relevant."
    ),
    Domain.PULLS: (
        "Answer using the pull requests below. Reference pull requests by number "
        "and mention their state, labels and changed files when relevant."
    ),
    Domain.ISSUES: (
        "Answer using the issues below. Reference issues by number and mention "
        "their state, labels and assignees when relevant."
    ),
    Domain.RELEASES: (
        "Answer using the releases below. Reference releases by tag and summarise "
        "their notes when relevant."
    ),
    Domain.STATS: (
        "Answer using the repository statistics below. Quote concrete numbers and "
        "time periods."
    ),
    Domain.USERS: (
        "Answer using the contributors below. Reference contributors by username "
        "and their contribution counts."
    ),
    Domain.REPO_META: (
        "Answer using the repository information below: description, languages, "
        "topics, license and activity dates."
    ),
}

NO_CONTEXT_NOTE = (
    "No indexed source code is available for this repository. Say so explicitly, "
    "answer only from general knowledge, and suggest indexing the repository."
)

RECENT_FALLBACK_NOTE = (
    "None of the items matched the question's keywords ({keywords}); the most "
    "recent items are shown instead. Say that the answer is based on recent "
    "activity rather than exact matches."
)

README_PROMPT = PromptTemplate.from_template(
    """
You are an expert technical writer. Create a comprehensive README.md for the repository {repository}.

Repository information:
{repository_info}

Important files:
{files}

Include a title and description, installation instructions, usage examples, a
features list, the technology stack, contribution notes and license information
where available. Return only the README content, not wrapped in backticks.
""".strip()
)

DOCKERFILE_PROMPT = PromptTemplate.from_template(
    """
You are an expert DevOps engineer. Create a production-ready Dockerfile for the repository {repository}.

Repository information:
{repository_info}

The main programming language of this repository is: {language}

Use an appropriate base image, multi-stage builds where they help, efficient
dependency installation, a non-root working directory, exposed ports and labels,
with short comments for each step. Return only the Dockerfile content, not
wrapped in backticks.
""".strip()
)

COMMENTS_PROMPT = PromptTemplate.from_template(
    """
You are an expert developer in {language}. Add comprehensive comments to the following code:

CODE START
{code}
CODE END

Add file-level documentation, function documentation (purpose, parameters, return
values, errors) and comments on complex logic. Do NOT change the code itself.
Return the commented code in the same language and formatting as the original.
""".strip()
)

REFACTOR_PROMPT = PromptTemplate.from_template(
    """
You are an expert developer in {language}. Refactor the following code according to these instructions:

{instructions}

CODE START
{code}
CODE END

Provide the refactored code, a brief explanation of the changes and the benefits
of the refactoring.
""".strip()
)

PULL_REQUEST_SUMMARY_PROMPT = PromptTemplate.from_template(
    """
Please analyze this GitHub pull request and generate a concise summary.

PR Title: {title}
PR Description: {description}

Changes: {changed_files} files changed with {additions} additions and {deletions} deletions

Most significant file changes:

{changes}

Based on the PR information above, generate a summary with:
1. A clear 1-2 sentence description of what this PR does
2. 3-5 main points highlighting the most important changes
3. A list of key technical changes introduced
4. File groupings with meaningful names and descriptions
5. Assessment of potential impact (performance, security, user experience)
6. Suggested areas for reviewers to focus on

Return only a JSON object with this structure:
{{"description": "Brief description of the PR", "main_points": ["Point 1"], "key_changes": ["Technical change 1"], "file_groups": [{{"name": "Group name", "description": "What these files do", "files": ["path"], "importance": 5}}], "potential_impact": "Description of potential impact", "suggested_reviewers": ["backend", "security"], "technical_details": "Additional technical details"}}
""".strip()
)

WALKTHROUGH_PROMPT = PromptTemplate.from_template(
    """
You are an expert software architect and developer. Create a walkthrough of the
repository {repository} that helps newcomers understand it.

Repository information:
{repository_info}

The main entry points of the application are:
{entry_points}

Source excerpts:
{code}

Create a code walkthrough that:
1. Identifies the key components and their purposes
2. Maps the flow of control through the application
3. Explains how different parts of the codebase interact
4. Highlights important design patterns or architectural decisions
5. Suggests a logical order for exploring the code

For each important file or component give its purpose, its role in the overall
architecture, the key functions to understand and its dependencies. Format the
response in markdown with clear sections and a logical progression.
""".strip()
)

FUNCTION_EXPLAINER_PROMPT = PromptTemplate.from_template(
    """
You are an expert developer in {language}. Explain the following function from file '{path}' in detail.

CODE START
{code}
CODE END

Please provide:
1. A clear description of what this function does
2. Each parameter: name, type and purpose
3. Return values: type, meaning and possible error conditions
4. A usage example showing how to call this function
5. Any notable algorithms, patterns or techniques used
6. Potential edge cases or limitations
7. Performance characteristics if relevant

Format the response in markdown so that a newcomer can follow it.
""".strip()
)

ARCHITECTURE_PROMPT = PromptTemplate.from_template(
    """
Generate a brief overview (3-5 sentences) of the architecture of the repository {repository}.

Key components:
{components}

Key files:
{key_files}

Relationships:
- Total files: {file_count}
- Total directories: {directory_count}
- Total import relationships: {import_count}
""".strip()
)
