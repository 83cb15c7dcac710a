import json

from halo.proxy.models import RewriteContext

SHIM_MARKER = "data-halo-shim"

# Runtime interception of URL-constructing browser APIs; rewrites the same way
# the server does, with the prefix and base URL captured in the closure.
SHIM_TEMPLATE = """
(function() {
  var proxyPath = __PROXY_PATH__;
  var baseUrl = __BASE_URL__;
  var targetScheme = __TARGET_SCHEME__;

  function rewrite(url) {
    if (typeof url !== 'string' || url === '') return url;
    if (url === proxyPath || url.indexOf(proxyPath + '/') === 0) return url;
    try {
      if (url.indexOf('//') === 0) {
        return proxyPath + '/' + encodeURIComponent(targetScheme + ':' + url);
      }
      if (/^https?:\\/\\//i.test(url)) {
        return proxyPath + '/' + encodeURIComponent(url);
      }
      if (url.charAt(0) === '/') {
        return proxyPath + '/' + encodeURIComponent(new URL(url, baseUrl).href);
      }
    } catch (e) {}
    return url;
  }

  var originalFetch = window.fetch;
  if (originalFetch) {
    window.fetch = function(input, init) {
      if (typeof input === 'string') {
        input = rewrite(input);
      } else if (input instanceof URL) {
        input = rewrite(input.href);
      }
      return originalFetch.call(this, input, init);
    };
  }

  var originalOpen = XMLHttpRequest.prototype.open;
  XMLHttpRequest.prototype.open = function(method, url) {
    var args = Array.prototype.slice.call(arguments);
    args[1] = rewrite(typeof url === 'string' ? url : String(url));
    return originalOpen.apply(this, args);
  };

  var OriginalWebSocket = window.WebSocket;
  if (OriginalWebSocket) {
    var PatchedWebSocket = function(url, protocols) {
      if (typeof url === 'string' && /^wss?:\\/\\//i.test(url)) {
        url = rewrite(url.replace(/^ws/i, 'http'));
      }
      return protocols === undefined
        ? new OriginalWebSocket(url)
        : new OriginalWebSocket(url, protocols);
    };
    PatchedWebSocket.prototype = OriginalWebSocket.prototype;
    PatchedWebSocket.CONNECTING = OriginalWebSocket.CONNECTING;
    PatchedWebSocket.OPEN = OriginalWebSocket.OPEN;
    PatchedWebSocket.CLOSING = OriginalWebSocket.CLOSING;
    PatchedWebSocket.CLOSED = OriginalWebSocket.CLOSED;
    window.WebSocket = PatchedWebSocket;
  }

  var originalCreateElement = document.createElement;
  document.createElement = function(tagName, options) {
    var element = originalCreateElement.call(this, tagName, options);
    var tag = String(tagName).toLowerCase();
    if (tag === 'script' || tag === 'link') {
      var originalSetAttribute = element.setAttribute;
      element.setAttribute = function(name, value) {
        if (name === 'src' || name === 'href') {
          value = rewrite(value);
        }
        return originalSetAttribute.call(this, name, value);
      };
    }
    return element;
  };
})();
"""


def _js_literal(value: str) -> str:
    # json.dumps gives a valid JS string; "</" must not close the script element
    return json.dumps(value).replace("</", "<\\/")


def render_shim(context: RewriteContext) -> str:
    """Source of the runtime shim for one rewritten document."""
    return (
        SHIM_TEMPLATE.replace("__PROXY_PATH__", _js_literal(context.proxy_prefix))
        .replace("__BASE_URL__", _js_literal(context.base_url))
        .replace("__TARGET_SCHEME__", _js_literal(context.target_scheme))
    )
