"""
Object and relationship catalog for the console's remote org.

Field names connecting these objects differ between org configurations, so
each relationship is described as ranked candidate names plus keywords for
the heuristic tier. Supporting a new naming variant is an edit to this table.
"""

from dataclasses import dataclass
from typing import Dict, Tuple


PROJECT = "Project__c"
PROJECT_OBJECTIVE = "Project_Objective__c"
CONTRIBUTOR_PROJECT = "Contributor_Project__c"
PROJECT_QUAL_STEP = "Project_Qualification_Step__c"
PROJECT_PAGE = "Project_Page__c"
PROJECT_TEAM = "Project_Team__c"
CONTACT = "Contact"

# Some orgs only have the project-scoped step object
QUAL_STEP_OBJECTS: Tuple[str, ...] = ("Qualification_Step__c", PROJECT_QUAL_STEP)

ACTIVE_CONTRIBUTOR_FILTER = "Status__c = 'Active'"

# Objectives still accepting contributors
OPEN_OBJECTIVE_FILTER = "Status__c IN ('Draft', 'Open', 'Paused')"

# Productivity target columns, selected when the org has them
PRODUCTIVITY_DEFAULT_FIELDS: Tuple[str, ...] = (
    "Status__c",
    "Target_Contributors__c",
    "Weekly_Contributor_Production_Hours__c",
    "Weekly_Target_Production_Hours_Calc__c",
    "Total_Target_Productivity_Hours__c",
    "Productivity_Target_Type__c",
)
PRODUCTIVITY_KEYWORDS = ("productivity", "target", "production", "contributor")


@dataclass(frozen=True)
class LinkCandidates:
    """
    Ranked names and keywords for the two ends of a relationship.

    source_names / source_keywords describe a field that points at the
    source object; target_names / target_keywords one that points at the
    target object. Earlier entries win.
    """

    source_names: Tuple[str, ...]
    target_names: Tuple[str, ...]
    source_keywords: Tuple[str, ...] = ()
    target_keywords: Tuple[str, ...] = ()
    junction_objects: Tuple[str, ...] = ()


QUAL_STEP_FIELD_NAMES = (
    "Qualification_Step__c",
    "Project_Qualification_Step__c",
    "QualificationStep__c",
)
QUAL_STEP_KEYWORDS = ("Qualification", "Qual", "Step")

OBJECTIVE_FIELD_NAMES = ("Project_Objective__c", "ProjectObjective__c", "Objective__c")
OBJECTIVE_KEYWORDS = ("Objective",)

PROJECT_FIELD_NAMES = ("Project__c", "Project_Id__c", "Related_Project__c")
PROJECT_KEYWORDS = ("Project",)

CONTRIBUTOR_FIELD_NAMES = ("Contact__c", "Contributor__c")
CONTRIBUTOR_KEYWORDS = ("Contributor", "Contact")


QUAL_STEP_TO_OBJECTIVE = LinkCandidates(
    source_names=QUAL_STEP_FIELD_NAMES,
    target_names=OBJECTIVE_FIELD_NAMES,
    source_keywords=QUAL_STEP_KEYWORDS,
    target_keywords=OBJECTIVE_KEYWORDS,
    junction_objects=(PROJECT_QUAL_STEP, PROJECT_PAGE),
)

PROJECT_TO_OBJECTIVE = LinkCandidates(
    source_names=PROJECT_FIELD_NAMES,
    target_names=OBJECTIVE_FIELD_NAMES,
    source_keywords=PROJECT_KEYWORDS,
    target_keywords=OBJECTIVE_KEYWORDS,
)

OBJECTIVE_TO_CONTRIBUTOR_PROJECT = LinkCandidates(
    source_names=OBJECTIVE_FIELD_NAMES,
    target_names=(),
    source_keywords=OBJECTIVE_KEYWORDS,
)

CONTRIBUTOR_PROJECT_TO_CONTACT = LinkCandidates(
    source_names=(),
    target_names=CONTRIBUTOR_FIELD_NAMES,
    target_keywords=CONTRIBUTOR_KEYWORDS,
)


# Cloneable object types: URL key -> (object name, display label)
CLONEABLE_OBJECTS: Dict[str, Tuple[str, str]] = {
    "project": (PROJECT, "Project"),
    "project-objective": (PROJECT_OBJECTIVE, "Project Objective"),
    "project-qualification-step": (PROJECT_QUAL_STEP, "Project Qualification Step"),
    "project-page": (PROJECT_PAGE, "Project Page"),
    "project-team": (PROJECT_TEAM, "Project Team"),
}
