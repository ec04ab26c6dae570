"""
Bundled Casbin models.

Model definitions the enforcer factory can build without a .conf file.
"""

# RBAC: subject (user/role) -> object -> action, with role inheritance
# through g rules. Allow if any policy matches.
DEFAULT_RBAC_MODEL = """
[request_definition]
r = sub, obj, act

[policy_definition]
p = sub, obj, act

[role_definition]
g = _, _

[policy_effect]
e = some(where (p.eft == allow))

[matchers]
m = g(r.sub, p.sub) && r.obj == p.obj && r.act == p.act
"""

# ACL without roles.
SIMPLE_ACL_MODEL = """
[request_definition]
r = sub, obj, act

[policy_definition]
p = sub, obj, act

[policy_effect]
e = some(where (p.eft == allow))

[matchers]
m = r.sub == p.sub && r.obj == p.obj && r.act == p.act
"""

BUNDLED_MODELS = {
    "rbac": DEFAULT_RBAC_MODEL,
    "acl": SIMPLE_ACL_MODEL,
}
