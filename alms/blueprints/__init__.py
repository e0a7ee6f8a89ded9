"""
Licensing Workflow Engine
Blueprint registry.
"""

from alms.blueprints.flow_mapping_bp import flow_mapping_bp
from alms.blueprints.health_bp import health_bp
from alms.blueprints.workflow_bp import workflow_bp

ALL_BLUEPRINTS = (health_bp, workflow_bp, flow_mapping_bp)
