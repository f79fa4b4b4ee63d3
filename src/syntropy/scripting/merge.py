"""Deep merge of plugin tables.

Merging runs inside the interpreter so that callbacks from both the base
and the override document survive as real Lua functions. The same
function is exposed to scripts as the global ``merge``.

Rules, applied recursively per key:

* a non-table override replaces the base value
* an array-like override (keys exactly 1..n, including ``{}``) replaces
  the base value wholesale
* two mapping tables merge key by key, override wins on leaves
"""

MERGE_SOURCE = """
local function is_array(t)
  local count = 0
  for _ in pairs(t) do
    count = count + 1
  end
  for i = 1, count do
    if t[i] == nil then
      return false
    end
  end
  return true
end

local function merge(base, override)
  if type(override) ~= "table" or type(base) ~= "table" then
    return override
  end
  if is_array(override) then
    return override
  end
  local result = {}
  for key, value in pairs(base) do
    result[key] = value
  end
  for key, value in pairs(override) do
    local current = result[key]
    if type(value) == "table" and type(current) == "table" and not is_array(value) then
      result[key] = merge(current, value)
    else
      result[key] = value
    end
  end
  return result
end

return merge
"""
