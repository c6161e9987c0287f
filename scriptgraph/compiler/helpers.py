"""
scriptgraph Compiler — Helper Files
====================================
Three fixed support files ship with every bundle:

    RuntimeHelpers.js   resolveTemplate / resolveObject / getContextValue,
                        safeJsonParse, formatDate, generateCorrelationId,
                        retryWithBackoff, and checkRateLimit when rate
                        limiting is enabled
    HttpHelpers.js      makeAuthenticatedRequest, postJson, getWithParams
    StorageHelpers.js   SecureStorage key/value wrapper over script
                        properties, markProcessed / isAlreadyProcessed

Node templates call these by name, so the names are part of the contract
between templates.py and this module.

resolveTemplate() implements the same rules as PlaceholderResolver:
{{path}} and ${path}, dotted lookup with array indices, missing paths left
untouched, non-string values rendered as JSON.
"""

from __future__ import annotations

import textwrap
from typing import List

from .ir import CompiledFile, CompilerOptions, FileType

RUNTIME_HELPERS = "RuntimeHelpers.js"
HTTP_HELPERS = "HttpHelpers.js"
STORAGE_HELPERS = "StorageHelpers.js"


_RUNTIME = textwrap.dedent("""\
    /**
     * Runtime helper functions
     */

    /**
     * Look up a dotted path ("results.n1.items.0.id") in the context.
     * Returns undefined when any segment is missing.
     */
    function getContextValue(context, path) {
      if (!path) {
        return undefined;
      }
      const parts = String(path).trim().split('.');
      let current = context;
      for (let i = 0; i < parts.length; i++) {
        if (current !== null && typeof current === 'object' && parts[i] in current) {
          current = current[parts[i]];
        } else {
          return undefined;
        }
      }
      return current;
    }

    /**
     * Replace {{path}} and ${path} placeholders with context values.
     * Unknown paths are left as written.
     */
    function resolveTemplate(template, context) {
      if (typeof template !== 'string') {
        return template;
      }
      return template.replace(/\\{\\{([^{}]+)\\}\\}|\\$\\{([^{}]+)\\}/g, function (match, braced, dollar) {
        const value = getContextValue(context, (braced || dollar).trim());
        if (value === undefined) {
          return match;
        }
        return typeof value === 'string' ? value : JSON.stringify(value);
      });
    }

    /**
     * Resolve every string inside a nested object or array.
     */
    function resolveObject(value, context) {
      if (typeof value === 'string') {
        return resolveTemplate(value, context);
      }
      if (Array.isArray(value)) {
        return value.map(function (item) { return resolveObject(item, context); });
      }
      if (value !== null && typeof value === 'object') {
        const resolved = {};
        Object.keys(value).forEach(function (key) {
          resolved[key] = resolveObject(value[key], context);
        });
        return resolved;
      }
      return value;
    }

    /**
     * JSON.parse with a fallback value instead of an exception.
     */
    function safeJsonParse(text, fallback) {
      try {
        return JSON.parse(text);
      } catch (e) {
        return fallback === undefined ? null : fallback;
      }
    }

    function formatDate(date) {
      return (date || new Date()).toISOString();
    }

    function generateCorrelationId() {
      return Utilities.getUuid();
    }

    /**
     * Call fn, retrying with exponential backoff.
     */
    function retryWithBackoff(fn, maxRetries, baseDelay) {
      maxRetries = maxRetries || 3;
      baseDelay = baseDelay || 1000;
      let lastError;
      for (let attempt = 0; attempt < maxRetries; attempt++) {
        try {
          return fn();
        } catch (error) {
          lastError = error;
          if (attempt < maxRetries - 1) {
            const delay = baseDelay * Math.pow(2, attempt);
            Logger.log('Retry attempt ' + (attempt + 1) + ' failed, waiting ' + delay + 'ms: ' + error.toString());
            Utilities.sleep(delay);
          }
        }
      }
      throw lastError;
    }""")


_RATE_LIMIT = textwrap.dedent("""\

    /**
     * Fixed-window rate limiter backed by script properties.
     * Throws once more than maxRequests calls land in one window.
     */
    function checkRateLimit(key, maxRequests, windowMs) {
      maxRequests = maxRequests || 100;
      windowMs = windowMs || 60000;
      const now = Date.now();
      const properties = PropertiesService.getScriptProperties();
      const storageKey = 'rate_limit_' + key;
      const state = safeJsonParse(properties.getProperty(storageKey), {}) || {};
      if (!state.window || now > state.window + windowMs) {
        state.window = now;
        state.count = 1;
      } else {
        state.count = (state.count || 0) + 1;
      }
      properties.setProperty(storageKey, JSON.stringify(state));
      if (state.count > maxRequests) {
        throw new Error('Rate limit exceeded for ' + key + ': ' + state.count + '/' + maxRequests + ' requests');
      }
      return state;
    }""")


_HTTP = textwrap.dedent("""\
    /**
     * HTTP helper functions
     */

    /**
     * Fetch with JSON defaults and retries; throws on HTTP status >= 400.
     */
    function makeAuthenticatedRequest(url, options) {
      const requestOptions = Object.assign({ method: 'GET', headers: {}, muteHttpExceptions: true }, options || {});
      requestOptions.headers = Object.assign({}, requestOptions.headers);
      requestOptions.headers['User-Agent'] = 'scriptgraph-automation/1.0';
      requestOptions.headers['Accept'] = 'application/json';

      if (String(requestOptions.method).toUpperCase() !== 'GET' && requestOptions.payload && typeof requestOptions.payload === 'object') {
        requestOptions.payload = JSON.stringify(requestOptions.payload);
        requestOptions.contentType = 'application/json';
      }

      return retryWithBackoff(function () {
        const response = UrlFetchApp.fetch(url, requestOptions);
        const code = response.getResponseCode();
        const text = response.getContentText();
        if (code >= 400) {
          throw new Error('HTTP ' + code + ': ' + text);
        }
        return {
          code: code,
          text: text,
          json: safeJsonParse(text, null),
          headers: response.getAllHeaders()
        };
      });
    }

    function postJson(url, data, headers) {
      return makeAuthenticatedRequest(url, {
        method: 'POST',
        payload: data,
        headers: headers || {}
      });
    }

    function getWithParams(url, params) {
      params = params || {};
      const query = Object.keys(params).map(function (key) {
        return encodeURIComponent(key) + '=' + encodeURIComponent(params[key]);
      }).join('&');
      return makeAuthenticatedRequest(query ? url + (url.indexOf('?') === -1 ? '?' : '&') + query : url);
    }""")


_STORAGE = textwrap.dedent("""\
    /**
     * Storage helper functions
     */

    /**
     * JSON values in script properties.
     */
    const SecureStorage = {
      set: function (key, value) {
        PropertiesService.getScriptProperties().setProperty(key, JSON.stringify(value));
      },

      get: function (key, defaultValue) {
        const fallback = defaultValue === undefined ? null : defaultValue;
        const value = PropertiesService.getScriptProperties().getProperty(key);
        return value === null ? fallback : safeJsonParse(value, fallback);
      },

      remove: function (key) {
        PropertiesService.getScriptProperties().deleteProperty(key);
      },

      has: function (key) {
        return PropertiesService.getScriptProperties().getProperty(key) !== null;
      },

      setMultiple: function (values) {
        const serialized = {};
        Object.keys(values).forEach(function (key) {
          serialized[key] = JSON.stringify(values[key]);
        });
        PropertiesService.getScriptProperties().setProperties(serialized);
      },

      getMultiple: function (keys) {
        const result = {};
        keys.forEach(function (key) {
          result[key] = SecureStorage.get(key, null);
        });
        return result;
      }
    };

    /**
     * Remember that an item was handled, for ttlHours.
     */
    function markProcessed(id, ttlHours) {
      const hours = ttlHours === undefined ? 24 : ttlHours;
      SecureStorage.set('processed_' + id, {
        processedAt: Date.now(),
        expiresAt: Date.now() + hours * 60 * 60 * 1000
      });
    }

    function isAlreadyProcessed(id) {
      const key = 'processed_' + id;
      const entry = SecureStorage.get(key, null);
      if (!entry) {
        return false;
      }
      if (Date.now() > entry.expiresAt) {
        SecureStorage.remove(key);
        return false;
      }
      return true;
    }

    /**
     * Drop expired dedup markers.
     */
    function cleanupExpiredEntries() {
      const properties = PropertiesService.getScriptProperties();
      const all = properties.getProperties();
      let removed = 0;
      Object.keys(all).forEach(function (key) {
        if (key.indexOf('processed_') !== 0) {
          return;
        }
        const entry = safeJsonParse(all[key], null);
        if (!entry || Date.now() > entry.expiresAt) {
          properties.deleteProperty(key);
          removed++;
        }
      });
      return removed;
    }""")


def runtime_helpers(options: CompilerOptions) -> str:
    source = _RUNTIME
    if options.include_rate_limiting:
        source += "\n" + _RATE_LIMIT
    return source + "\n"


def http_helpers(options: CompilerOptions) -> str:
    return _HTTP + "\n"


def storage_helpers(options: CompilerOptions) -> str:
    return _STORAGE + "\n"


def helper_files(options: CompilerOptions) -> List[CompiledFile]:
    return [
        CompiledFile(RUNTIME_HELPERS, runtime_helpers(options), FileType.CODE, "Runtime utility functions"),
        CompiledFile(HTTP_HELPERS, http_helpers(options), FileType.CODE, "HTTP request utilities"),
        CompiledFile(STORAGE_HELPERS, storage_helpers(options), FileType.CODE, "Key/value storage and deduplication"),
    ]


__all__ = [
    "HTTP_HELPERS",
    "RUNTIME_HELPERS",
    "STORAGE_HELPERS",
    "helper_files",
    "http_helpers",
    "runtime_helpers",
    "storage_helpers",
]
